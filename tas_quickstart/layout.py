"""Where the quickstart keeps things inside a TAS checkout."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from .process_types import ManagedProcess

DEFAULT_TAS_URL = "http://localhost:5000"
SNP_TOOLS_REPO = "https://github.com/TEE-Attestation/snp_pytools.git"
# Used by the pid-file-less stop fallback.
SERVICE_PROCESS_PATTERN = "python.*app.py"


@dataclass(frozen=True)
class TasLayout:
    tas_dir: Path

    @property
    def venv_dir(self) -> Path:
        return self.tas_dir / "venv"

    @property
    def venv_python(self) -> Path:
        return self.venv_dir / "bin" / "python"

    @property
    def pid_file(self) -> Path:
        return self.tas_dir / ".tas.pid"

    @property
    def env_file(self) -> Path:
        return self.tas_dir / ".env.demo"

    @property
    def log_file(self) -> Path:
        return self.tas_dir / "tas.log"

    @property
    def snp_tools_dir(self) -> Path:
        return self.tas_dir / "snp_pytools"

    @property
    def requirements(self) -> Path:
        return self.tas_dir / "requirements.txt"

    @property
    def app_entry(self) -> Path:
        return self.tas_dir / "app.py"

    @property
    def policy_dir(self) -> Path:
        return self.tas_dir / "certs" / "policy"

    @property
    def mock_secrets(self) -> Path:
        return self.tas_dir / "config" / "mock_secrets.yaml"

    def service_process(self, environment: Dict[str, str] | None = None) -> ManagedProcess:
        """The TAS server as run from its virtual environment."""
        return ManagedProcess(
            command=[str(self.venv_python), self.app_entry.name],
            working_directory=self.tas_dir,
            log_file=self.log_file,
            pid_file=self.pid_file,
            environment=environment,
        )
