from importlib import metadata
from pathlib import Path

import tomli as tomllib

DISTRIBUTION_NAME = "userbackend"


def get_version() -> str:
    """
    Get the userbackend version.

    Reads pyproject.toml from a source checkout, then falls back to the
    installed distribution metadata.

    Returns:
        Version string, or "unknown" if not found
    """
    pyproject_path = Path(__file__).parent.parent / "pyproject.toml"

    if pyproject_path.exists():
        with open(pyproject_path, "rb") as f:
            pyproject = tomllib.load(f)
        project = pyproject.get("project", {})
        if project.get("name") == DISTRIBUTION_NAME and "version" in project:
            return project["version"]

    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"
