from typing import Dict, List
from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    # Application
    app_name: str = "logmux"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_prefix: str = "/api"

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Docker hosts, each entry is "name=url". Empty means one "local" host from the environment.
    docker_hosts: List[str] = Field(default_factory=list)

    # Streaming
    keepalive_interval: float = Field(5.0, gt=0)
    membership_buffer: int = Field(10, ge=1)
    group_label: str = "dev.logmux.group"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost"]
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["GET"]
    cors_allow_headers: List[str] = ["*"]

    @validator("log_level")
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @validator("docker_hosts", each_item=True)
    def validate_docker_host(cls, v):
        name, sep, url = v.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ValueError(f"Docker host must look like name=url, got {v!r}")
        return v

    def host_urls(self) -> Dict[str, str]:
        """Map of host id to Docker endpoint URL; an empty URL means "from environment"."""
        if not self.docker_hosts:
            return {"local": ""}
        hosts = {}
        for entry in self.docker_hosts:
            name, _, url = entry.partition("=")
            hosts[name.strip()] = url.strip()
        return hosts

    class Config:
        env_file = ".env"
        env_prefix = "LOGMUX_"
        case_sensitive = False


settings = Settings()
