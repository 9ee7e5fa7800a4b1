"""
Dependency wiring for the FastAPI app.

The persistence backend, storage client and cache are chosen once from
configuration; everything else receives them by reference.
"""

from __future__ import annotations

import os

from admin_backend.cache import InMemoryTtlCache, RedisTtlCache, SettingsCache
from admin_backend.config import get_settings
from admin_backend.dropdowns import DropdownService
from admin_backend.files import FileManager
from admin_backend.languages import LanguageDirectory
from admin_backend.persistence.mongo import MongoBackend
from admin_backend.persistence.port import Backend
from admin_backend.persistence.sql import SqlBackend
from admin_backend.replication import ReplicationEngine
from admin_backend.settings_store import SettingsStore
from admin_backend.sliders import SliderService
from admin_backend.storage import (
    InMemoryStorageClient,
    LocalStorageClient,
    S3StorageClient,
    StorageClient,
)
from admin_backend.unique_codes import UniqueCodeGenerator

IN_MEMORY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_backend: Backend | None = None
_storage_client: StorageClient | None = None
_settings_cache: SettingsCache | None = None
_file_manager: FileManager | None = None
_dropdown_service: DropdownService | None = None
_slider_service: SliderService | None = None
_settings_store: SettingsStore | None = None


def get_backend() -> Backend:
    """
    Return the process-wide persistence backend.
    """
    global _backend
    if _backend:
        return _backend

    settings = get_settings()
    if settings.use_in_memory_backends:
        _backend = SqlBackend(IN_MEMORY_DATABASE_URL)
    elif settings.database_type == "mongodb":
        _backend = MongoBackend(settings.mongodb_uri, settings.mongodb_database)
    else:
        _backend = SqlBackend(settings.database_url)
    return _backend


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    elif settings.asset_management_tool == "aws":
        if not settings.aws_bucket_name or not settings.aws_region:
            raise ValueError(
                "AWS_BUCKET_NAME and AWS_REGION are required when "
                "ASSET_MANAGEMENT_TOOL=aws"
            )
        _storage_client = S3StorageClient(
            bucket=settings.aws_bucket_name,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            endpoint=settings.aws_endpoint_url,
            cdn_url=settings.cdn_url,
        )
    else:
        _storage_client = LocalStorageClient(
            root=os.path.abspath(settings.uploads_dir), api_url=settings.api_url
        )
    return _storage_client


def get_settings_cache() -> SettingsCache:
    global _settings_cache
    if _settings_cache:
        return _settings_cache

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _settings_cache = RedisTtlCache(
            url=settings.redis_url, ttl=settings.settings_cache_ttl
        )
    else:
        _settings_cache = InMemoryTtlCache(
            ttl=settings.settings_cache_ttl,
            check_period=settings.settings_cache_check_period,
            max_keys=settings.settings_cache_max_keys,
        )
    return _settings_cache


def get_file_manager() -> FileManager:
    global _file_manager
    if _file_manager:
        return _file_manager
    _file_manager = FileManager(
        get_storage_client(),
        signed_url_ttl=get_settings().signed_url_expiry_seconds,
    )
    return _file_manager


def get_language_directory() -> LanguageDirectory:
    return LanguageDirectory(get_backend().languages)


def _code_generator(repository) -> UniqueCodeGenerator:
    settings = get_settings()
    return UniqueCodeGenerator(
        repository,
        digits=settings.unique_code_digits,
        max_attempts=settings.unique_code_max_attempts,
    )


def get_dropdown_service() -> DropdownService:
    global _dropdown_service
    if _dropdown_service:
        return _dropdown_service
    backend = get_backend()
    languages = get_language_directory()
    engine = ReplicationEngine(
        backend.dropdowns,
        languages,
        _code_generator(backend.dropdowns),
        get_file_manager(),
        bucket="dropdowns",
        file_prefix="dropdown",
    )
    _dropdown_service = DropdownService(backend.dropdowns, languages, engine)
    return _dropdown_service


def get_slider_service() -> SliderService:
    global _slider_service
    if _slider_service:
        return _slider_service
    backend = get_backend()
    languages = get_language_directory()
    engine = ReplicationEngine(
        backend.sliders,
        languages,
        _code_generator(backend.sliders),
        get_file_manager(),
        bucket=get_settings().sliders_bucket,
        file_prefix="slider",
        file_field="slider_image",
    )
    _slider_service = SliderService(backend.sliders, languages, engine)
    return _slider_service


def get_settings_store() -> SettingsStore:
    global _settings_store
    if _settings_store:
        return _settings_store
    settings = get_settings()
    _settings_store = SettingsStore(
        get_backend().settings,
        get_settings_cache(),
        get_file_manager(),
        bucket=settings.settings_bucket,
        max_file_size=settings.upload_max_file_size,
    )
    return _settings_store


def reset_dependencies() -> None:
    """Drop every singleton so the next request rebuilds them (tests)."""
    global _backend, _storage_client, _settings_cache, _file_manager
    global _dropdown_service, _slider_service, _settings_store
    _backend = None
    _storage_client = None
    _settings_cache = None
    _file_manager = None
    _dropdown_service = None
    _slider_service = None
    _settings_store = None
