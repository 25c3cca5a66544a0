from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


def _aliases(name: str, legacy: str) -> AliasChoices:
    # env_prefix is not applied to aliased fields, so the prefixed env name is listed too
    return AliasChoices(name, legacy, f'FILEGATE_{name.upper()}')


class LockedFolder(BaseModel):
    folder_name: str = Field(min_length=1, validation_alias=AliasChoices('folder_name', 'folderName'))
    pin: str = Field(min_length=1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix='FILEGATE_',
        env_file='.env',
        env_file_encoding='utf-8',
        json_file='config.json',
        json_file_encoding='utf-8',
    )

    app_name: str = 'FileGate'
    app_host: str = '0.0.0.0'
    app_port: int = Field(default=3000, ge=1, le=65535, validation_alias=_aliases('app_port', 'port'))
    root_dir: str = Field(default='uploads', validation_alias=_aliases('root_dir', 'uploadDir'))
    admin_ips: list[str] = Field(default_factory=list, validation_alias=_aliases('admin_ips', 'adminIps'))
    locked_folders: list[LockedFolder] = Field(
        default_factory=list,
        validation_alias=_aliases('locked_folders', 'lockedFolders'),
    )
    trust_forwarded_for: bool = False
    search_respects_locks: bool = False
    preview_enabled: bool = True
    multipart_filename_charset: str = 'utf-8'
    log_level: str = 'info'
    cors_origins: str = ''

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # env beats .env beats config.json
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
