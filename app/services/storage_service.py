import io
import logging
import time
from typing import Optional

import aiohttp
import cloudinary
import cloudinary.api
import cloudinary.uploader
import cloudinary.utils

from app.config.settings import STORAGE_ROOT_FOLDER

VALID_FOLDERS = [
    "originals",
    "signatures",
    "completed",
]


class StorageError(Exception):
    pass


def is_valid_folder(folder: str) -> bool:
    return folder in VALID_FOLDERS


def document_path(company_id: str, folder: str, filename: str) -> str:
    # Tudo de uma empresa fica debaixo de secure_documents/{company_id}/
    if not is_valid_folder(folder):
        raise ValueError(f"Invalid storage folder: {folder}")
    return f"{STORAGE_ROOT_FOLDER}/{company_id}/{folder}/{filename}"


class BlobStore:
    """Contrato mínimo de armazenamento: gravar bytes e receber a URL de volta."""

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError

    async def get(self, path: str) -> bytes:
        raise NotImplementedError

    async def signed_url(self, path: str, expires_in: int) -> str:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError


async def download_pdf(url: str) -> bytes:
    async with aiohttp.ClientSession() as session:
        async with session.get(url) as resp:
            if resp.status != 200:
                logging.error(f"Error downloading file: status {resp.status}")
                raise StorageError(f"Error downloading file: {resp.status}")
            return await resp.read()


class CloudinaryBlobStore(BlobStore):
    # Arquivos privados (type=authenticated): só saem com URL assinada
    delivery_type = "authenticated"

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        upload_result = cloudinary.uploader.upload(
            io.BytesIO(data),
            resource_type="raw",
            public_id=path,
            type=self.delivery_type,
            overwrite=True,
        )
        url = upload_result.get("secure_url")
        if not url:
            raise StorageError(f"Upload returned no URL for {path}")
        logging.info(f"Uploaded {path} ({len(data)} bytes, {content_type})")
        return url

    async def signed_url(self, path: str, expires_in: int) -> str:
        return cloudinary.utils.private_download_url(
            path,
            "",
            resource_type="raw",
            type=self.delivery_type,
            expires_at=int(time.time()) + expires_in,
        )

    async def get(self, path: str) -> bytes:
        url = await self.signed_url(path, expires_in=300)
        return await download_pdf(url)

    async def delete(self, path: str) -> None:
        result = cloudinary.api.delete_resources(
            [path],
            resource_type="raw",
            type=self.delivery_type,
        )
        logging.info(f"Deleted {path} from Cloudinary: {result.get('deleted', {}).get(path)}")


_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    global _store
    if _store is None:
        _store = CloudinaryBlobStore()
    return _store


async def load_document(store: BlobStore, storage_path: Optional[str], url: str) -> bytes:
    """Lê o PDF do nosso storage quando existe caminho; senão baixa pela URL."""
    if storage_path:
        return await store.get(storage_path)
    return await download_pdf(url)
