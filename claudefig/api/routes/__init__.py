from pathlib import Path

from claudefig.errors import NotFoundError


def project_directory(project_path: str) -> Path:
    """Expand ``project_path``; 404 unless it is an existing directory."""
    project = Path(project_path).expanduser()
    if not project.is_dir():
        raise NotFoundError(f"Project directory not found: {project_path}", project)
    return project
