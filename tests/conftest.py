import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from application.dtos import BackendConfig, TransferOutcome
from domain.cache_key import ToolchainVersion
from infrastructure.remote_object_store import Transfer


class FakeCommandRunner:
    """Records install commands; a successful run writes the install directory."""

    def __init__(
        self,
        exit_code: int = 0,
        creates: Optional[Dict[str, bytes]] = None,
        available: bool = True,
        links: Optional[Dict[str, str]] = None,
    ):
        self.exit_code = exit_code
        self.creates = creates if creates is not None else {"lib/index.js": b"module.exports = 1;"}
        self.links = links or {}
        self.available = available
        self.install_directory: Optional[Path] = None
        self.calls: List[str] = []

    def which(self, cli_name: str) -> Optional[str]:
        return f"/usr/bin/{cli_name}" if self.available else None

    async def run(self, command: str, cwd: Optional[Path] = None) -> int:
        self.calls.append(command)
        if self.exit_code == 0 and self.install_directory is not None:
            for relative_path, content in self.creates.items():
                path = self.install_directory / relative_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)
            for relative_path, target in self.links.items():
                path = self.install_directory / relative_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.symlink_to(target)
        return self.exit_code


class FakeRemote:
    """Remote store double returning canned transfer outcomes."""

    def __init__(
        self,
        download_outcome: TransferOutcome,
        upload_outcome: TransferOutcome = TransferOutcome.succeeded(200),
        download_content: bytes = b"",
    ):
        self.download_outcome = download_outcome
        self.upload_outcome = upload_outcome
        self.download_content = download_content
        self.downloads: List[str] = []
        self.uploads: List[str] = []

    def download(self, bucket: str, key: str, local_path: Path) -> Transfer:
        self.downloads.append(key)

        async def operation(emit):
            if self.download_outcome.ok:
                local_path.parent.mkdir(parents=True, exist_ok=True)
                local_path.write_bytes(self.download_content)
            return self.download_outcome

        return Transfer(operation)

    def upload(self, local_path: Path, bucket: str, key: str) -> Transfer:
        self.uploads.append(key)

        async def operation(emit):
            return self.upload_outcome

        return Transfer(operation)


def write_package_json(directory: Path, name: str = "demo-app", dependencies: Optional[dict] = None) -> Path:
    manifest_path = directory / "package.json"
    manifest_path.write_text(json.dumps({
        "name": name,
        "dependencies": dependencies if dependencies is not None else {"left-pad": "1.3.0"},
        "devDependencies": {"mocha": "^10.0.0"},
    }))
    return manifest_path


def make_config(project_dir: Path, name: str = "npm", remote=None) -> BackendConfig:
    return BackendConfig(
        name=name,
        cli_name=name,
        manifest_path=project_dir / "package.json",
        install_directory=project_dir / "node_modules",
        install_command=f"{name} install",
        manifest_fields=("dependencies", "devDependencies", "overrides"),
        version_probe=lambda: ToolchainVersion.of("linux", "node-v20.0.0", "npm-10.0.0"),
        working_directory=project_dir,
        remote=remote,
    )


@pytest.fixture
def project_dir(tmp_path):
    directory = tmp_path / "project"
    directory.mkdir()
    return directory


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"
