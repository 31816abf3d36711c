import os
from .core import ConfigBootstrapper, ConfigFile, ConfigMissing

__all__ = ["ConfigBootstrapper", "ConfigFile", "ConfigMissing",
           "default_config_files", "ensure_configs"]

BACKEND_ENV = os.path.join("backend", ".env")
BACKEND_ENV_TEMPLATE = os.path.join("backend", "env.example")
FRONTEND_ENV = ".env.local"

FRONTEND_ENV_VALUES = {
    "VITE_API_URL": "http://localhost:5000/api",
    "VITE_SOCKET_URL": "http://localhost:5000",
}


def _env_text(values):
    return "".join(f"{k}={v}\n" for k, v in values.items())


def default_config_files(root):
    """The backend .env (from its template) and the frontend .env.local."""
    return [
        ConfigFile(
            "Backend .env",
            os.path.join(root, BACKEND_ENV),
            template=os.path.join(root, BACKEND_ENV_TEMPLATE),
            hint="Please update with your configuration.",
        ),
        ConfigFile(
            "Frontend .env.local",
            os.path.join(root, FRONTEND_ENV),
            content=_env_text(FRONTEND_ENV_VALUES),
        ),
    ]


def ensure_configs(root):
    """Shortcut: bootstrap the default files under `root`."""
    return ConfigBootstrapper(default_config_files(root)).ensure()
