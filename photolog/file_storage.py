"""
File Storage Management for post pictures
Handles writing, deletion and URL generation for normalized media files
"""

import os
import logging

import aiofiles
import aiofiles.os

from .errors import EncodeFailure
from .imaging import CANONICAL_EXTENSION

logger = logging.getLogger(__name__)

# Configuration
MEDIA_ROOT = os.getenv('MEDIA_ROOT', 'media')
MEDIA_URL = '/media'

# Ensure media directory exists
os.makedirs(MEDIA_ROOT, exist_ok=True)


class FileStorageManager:
    """Manages media files of posts"""

    @staticmethod
    def generate_filename(post_name: str) -> str:
        return f"{post_name}.{CANONICAL_EXTENSION}"

    @staticmethod
    def get_file_path(filename: str) -> str:
        return os.path.join(MEDIA_ROOT, filename)

    @classmethod
    def get_public_url(cls, post_name: str) -> str:
        """Get public URL for the picture of a post"""
        return f"{MEDIA_URL}/{cls.generate_filename(post_name)}"

    @classmethod
    async def save_picture(cls, post_name: str, content: bytes) -> str:
        """Write the normalized picture of a post and return its path"""
        file_path = cls.get_file_path(cls.generate_filename(post_name))
        try:
            async with aiofiles.open(file_path, 'wb') as f:
                await f.write(content)
        except OSError as e:
            # Clean up file if it was created
            if os.path.exists(file_path):
                os.remove(file_path)
            raise EncodeFailure() from e
        return file_path

    @classmethod
    async def delete_picture(cls, post_name: str) -> bool:
        """Delete the picture of a post, best effort"""
        file_path = cls.get_file_path(cls.generate_filename(post_name))
        try:
            await aiofiles.os.remove(file_path)
            return True
        except OSError as e:
            logger.warning(f"Could not delete media file {file_path}: {e}")
            return False


# Global instance
file_storage = FileStorageManager()
