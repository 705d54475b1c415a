"""Install steps: virtual environment, packages, environment file, policy."""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List

from .env_file import generate_api_key, write_env_file
from .errors import CommandFailed, MissingFile, QuickstartError
from .layout import SNP_TOOLS_REPO, TasLayout
from .logging_utils import CLI_LOGGER, log_success

__all__ = [
    "run_command",
    "setup_venv",
    "install_snp_tools",
    "install_dependencies",
    "setup_environment",
    "setup_policy",
    "deep_merge",
]

logger = logging.getLogger(__name__)

KBM_PLUGIN = "tas_kbm_mock"
KBM_CONFIG_FILE = "config/mock_secrets.yaml"

MOCK_SECRETS = {
    "test-key-1": "test-secret-value",
    "demo-key": "demo-secret-value",
    "example-key": "example-secret-value",
}


def run_command(argv: List[str], cwd: Path | None = None, quiet: bool = False) -> None:
    """Run *argv* to completion; raise :class:`CommandFailed` on a non-zero exit.

    With *quiet* the output is captured and only written to the run log.
    """
    logger.debug("event=run argv=%s cwd=%s", argv, cwd)
    try:
        res = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            capture_output=quiet,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandFailed(argv, 127) from exc

    if quiet and (res.stdout or res.stderr):
        logger.debug("output of %s:\n%s%s", argv[0], res.stdout, res.stderr)
    if res.returncode != 0:
        raise CommandFailed(argv, res.returncode)


def _pip_install(layout: TasLayout, args: List[str], cwd: Path | None = None) -> None:
    base = [str(layout.venv_python), "-m", "pip", "install"]
    try:
        run_command(base + ["--quiet", *args], cwd=cwd, quiet=True)
    except CommandFailed:
        # Re-run without --quiet so the user sees what went wrong.
        CLI_LOGGER.warning("Quiet install failed, retrying with full output...")
        run_command(base + args, cwd=cwd)


def setup_venv(layout: TasLayout, python: str | None = None) -> None:
    if layout.venv_dir.is_dir():
        CLI_LOGGER.warning("Virtual environment already exists. Skipping creation.")
        return

    CLI_LOGGER.info("Creating virtual environment...")
    run_command([python or sys.executable, "-m", "venv", str(layout.venv_dir)])
    log_success("Virtual environment created")


def install_snp_tools(layout: TasLayout, repo_url: str = SNP_TOOLS_REPO) -> None:
    if layout.snp_tools_dir.is_dir():
        CLI_LOGGER.warning("snp_pytools directory already exists. Skipping clone.")
    else:
        CLI_LOGGER.info("Cloning snp_pytools repository...")
        run_command(["git", "clone", repo_url, str(layout.snp_tools_dir)])
        log_success("snp_pytools cloned")

    CLI_LOGGER.info("Installing snp_pytools...")
    _pip_install(layout, ["."], cwd=layout.snp_tools_dir)
    log_success("snp_pytools installed")


def install_dependencies(layout: TasLayout) -> None:
    if not layout.requirements.is_file():
        raise MissingFile(f"requirements.txt not found in {layout.tas_dir}")

    CLI_LOGGER.info("Installing from requirements.txt...")
    _pip_install(layout, ["-r", str(layout.requirements)], cwd=layout.tas_dir)
    log_success("TAS dependencies installed")


def _render_mock_secrets(secrets: Dict[str, str]) -> str:
    lines = ["secrets:"]
    for key, value in secrets.items():
        lines.append(f"  {key}: {json.dumps(value)}")
    return "\n".join(lines) + "\n"


def setup_environment(layout: TasLayout) -> Dict[str, str]:
    """Generate the API key, write the mock secrets and the env file.

    Returns the values written to the env file.
    """
    values = {
        "TAS_API_KEY": generate_api_key(),
        "TAS_KBM_PLUGIN": KBM_PLUGIN,
        "TAS_KBM_CONFIG_FILE": KBM_CONFIG_FILE,
    }
    log_success("Generated TAS_API_KEY")
    log_success("Set TAS_KBM_PLUGIN=%s", KBM_PLUGIN)
    log_success("Set TAS_KBM_CONFIG_FILE=%s", KBM_CONFIG_FILE)

    if layout.mock_secrets.exists():
        CLI_LOGGER.warning("%s already exists. Skipping creation.", KBM_CONFIG_FILE)
    else:
        CLI_LOGGER.info("Creating mock secrets configuration...")
        layout.mock_secrets.parent.mkdir(parents=True, exist_ok=True)
        layout.mock_secrets.write_text(
            _render_mock_secrets(MOCK_SECRETS), encoding="utf-8"
        )
        log_success("Mock secrets configuration created")

    write_env_file(layout.env_file, values)
    log_success("Environment variables saved to %s", layout.env_file)
    return values


def deep_merge(left: Any, right: Any) -> Any:
    """Recursively merge two JSON values, *right* winning on conflicts.

    Objects merge key by key; any other pair of values resolves to *right*.
    """
    if isinstance(left, dict) and isinstance(right, dict):
        merged = dict(left)
        for key, value in right.items():
            merged[key] = deep_merge(merged[key], value) if key in merged else value
        return merged
    return right


def setup_policy(layout: TasLayout, python: str | None = None) -> Path:
    """Sign the example policy and write ``example_policy_signed.json``."""
    policy_dir = layout.policy_dir
    signer = policy_dir / "demo_signer.py"
    policy = policy_dir / "example_policy.json"

    if not signer.is_file():
        raise MissingFile("demo_signer.py not found in certs/policy/")
    if not policy.is_file():
        raise MissingFile("example_policy.json not found in certs/policy/")

    CLI_LOGGER.info("Signing example policy...")
    run_command(
        [python or str(layout.venv_python), signer.name, f"./{policy.name}"],
        cwd=policy_dir,
    )

    signature = policy_dir / f"{policy.name}.sig"
    if not signature.is_file():
        raise MissingFile(f"Signer did not produce {signature.name}")

    CLI_LOGGER.info("Combining policy and signature...")
    documents = []
    for path in (policy, signature):
        try:
            documents.append(json.loads(path.read_text(encoding="utf-8")))
        except json.JSONDecodeError as exc:
            raise QuickstartError(f"{path.name} is not valid JSON: {exc}") from exc
    merged = deep_merge(*documents)
    signed = policy_dir / "example_policy_signed.json"
    signed.write_text(json.dumps(merged, indent=2) + "\n", encoding="utf-8")
    log_success("Policy signed and saved to certs/policy/%s", signed.name)
    return signed
