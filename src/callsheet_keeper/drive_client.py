from __future__ import annotations

import io

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .errors import StoreError
from .models import StoredFile

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,webViewLink"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _list_all(service: Resource, *, q: str, fields: str = FILE_FIELDS) -> list[dict]:
    out: list[dict] = []
    req = service.files().list(q=q, spaces="drive", fields=f"nextPageToken,files({fields})", pageSize=100)
    while req is not None:
        res = req.execute()
        out.extend(res.get("files", []))
        req = service.files().list_next(previous_request=req, previous_response=res)
    return out


def find_folder_id_by_name(service: Resource, *, folder_name: str, parent_id: str) -> str | None:
    q = (
        f"mimeType='{FOLDER_MIME_TYPE}' "
        "and trashed=false "
        f"and name='{_quote(folder_name)}' "
        f"and '{_quote(parent_id)}' in parents"
    )
    files = _list_all(service, q=q, fields="id,name")
    return files[0]["id"] if files else None


def create_folder(service: Resource, *, folder_name: str, parent_id: str | None = None) -> str:
    body: dict = {"name": folder_name, "mimeType": FOLDER_MIME_TYPE}
    if parent_id:
        body["parents"] = [parent_id]
    created = service.files().create(body=body, fields="id").execute()
    return created["id"]


def list_files(service: Resource, *, folder_id: str, name: str | None = None) -> list[dict]:
    q = f"'{_quote(folder_id)}' in parents and trashed=false and mimeType!='{FOLDER_MIME_TYPE}'"
    if name is not None:
        q += f" and name='{_quote(name)}'"
    return _list_all(service, q=q)


def upload_bytes(service: Resource, *, data: bytes, folder_id: str, filename: str, mime_type: str) -> dict:
    media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=True)
    body = {"name": filename, "parents": [folder_id]}
    return service.files().create(body=body, media_body=media, fields=FILE_FIELDS).execute()


def move_and_rename(service: Resource, *, file_id: str, folder_id: str, new_name: str) -> None:
    current = service.files().get(fileId=file_id, fields="parents").execute()
    previous = ",".join(current.get("parents", []) or [])
    service.files().update(
        fileId=file_id,
        addParents=folder_id,
        removeParents=previous,
        body={"name": new_name},
        fields="id,parents",
    ).execute()


def web_view_link(service: Resource, *, file_id: str) -> str:
    meta = service.files().get(fileId=file_id, fields="webViewLink").execute()
    return meta["webViewLink"]


def _stored(meta: dict) -> StoredFile:
    return StoredFile(id=meta["id"], name=meta["name"], web_link=meta.get("webViewLink"))


class DriveFileStore:
    """File store over the Drive v3 API. Every HttpError surfaces as StoreError."""

    def __init__(self, service: Resource) -> None:
        self.service = service

    def find_folder(self, parent_id: str, name: str) -> str | None:
        try:
            return find_folder_id_by_name(self.service, folder_name=name, parent_id=parent_id)
        except HttpError as e:
            raise StoreError(f"Drive folder lookup {name!r} failed: {e}") from e

    def create_folder(self, parent_id: str, name: str) -> str:
        try:
            return create_folder(self.service, folder_name=name, parent_id=parent_id)
        except HttpError as e:
            raise StoreError(f"Drive could not create folder {name!r}: {e}") from e

    def list_files(self, folder_id: str, name: str | None = None) -> list[StoredFile]:
        try:
            return [_stored(m) for m in list_files(self.service, folder_id=folder_id, name=name)]
        except HttpError as e:
            raise StoreError(f"Drive listing of {folder_id} failed: {e}") from e

    def create_file(self, folder_id: str, name: str, data: bytes, mime_type: str) -> StoredFile:
        try:
            return _stored(upload_bytes(self.service, data=data, folder_id=folder_id, filename=name, mime_type=mime_type))
        except HttpError as e:
            raise StoreError(f"Drive upload of {name!r} failed: {e}") from e

    def move_file(self, file_id: str, folder_id: str, new_name: str) -> None:
        try:
            move_and_rename(self.service, file_id=file_id, folder_id=folder_id, new_name=new_name)
        except HttpError as e:
            raise StoreError(f"Drive move of {file_id} failed: {e}") from e

    def share_link(self, file_id: str) -> str:
        try:
            return web_view_link(self.service, file_id=file_id)
        except HttpError as e:
            raise StoreError(f"Drive link lookup for {file_id} failed: {e}") from e
