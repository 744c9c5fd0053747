"""Data models for uploaded images."""

from .file_store import FileStore, StoredFile
