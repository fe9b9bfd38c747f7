import uuid

from storefront.core.config import get_settings
from storefront.core.supabase_client import supabase_admin

settings = get_settings()

PRODUCT_FOLDER = "products"


def generate_filename(original_name: str) -> str:
    """
    Prefix the client's filename with a UUID4 so uploads never collide.

    Example:
        "rose.png" -> "<uuid4>_rose.png"
    """
    safe_name = original_name.replace("/", "_").strip() or "image"
    return f"{uuid.uuid4()}_{safe_name}"


class ImageStorage:
    """
    Blob storage for product images, backed by a Supabase Storage bucket.

    The rest of the application only sees (url, filename) pairs.
    """

    def __init__(self, client=None, bucket: str | None = None):
        self._client = client
        self.bucket = bucket or settings.STORAGE_BUCKET

    @property
    def client(self):
        if self._client is None:
            self._client = supabase_admin()
        return self._client

    def upload(self, file_bytes: bytes, original_name: str) -> tuple[str, str]:
        """
        Upload raw bytes and return (public_url, filename).

        Raises:
            Any exception raised by Supabase client if upload fails.
        """
        filename = generate_filename(original_name)
        path = f"{PRODUCT_FOLDER}/{filename}"
        self.client.storage.from_(self.bucket).upload(path, file_bytes, {"upsert": "true"})
        url = self.client.storage.from_(self.bucket).get_public_url(path)
        return url, filename

    def extract_path_from_public_url(self, url: str) -> str | None:
        """
        Given a public URL, extract the object path relative to the bucket.

        Example:
            https://<proj>.supabase.co/storage/v1/object/public/assets/products/x.png
            -> 'products/x.png'
        """
        marker = f"/storage/v1/object/public/{self.bucket}/"
        idx = url.find(marker)
        if idx == -1:
            return None
        return url[idx + len(marker) :]

    def delete_public_url(self, url: str) -> None:
        """
        Delete a file by its public URL.
        No-op if the URL does not belong to this bucket.
        """
        path = self.extract_path_from_public_url(url)
        if path:
            self.client.storage.from_(self.bucket).remove([path])


def get_image_storage() -> ImageStorage:
    """FastAPI dependency; overridden in tests."""
    return ImageStorage()
