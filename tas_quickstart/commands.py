from __future__ import annotations

import abc
import logging
import os
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Dict

import httpx
from rich.markup import escape

from .console import print_blank, print_details, print_header, print_rich, print_step
from .env_file import read_env_file
from .errors import MissingDependency, QuickstartError
from .installer import (
    install_dependencies,
    install_snp_tools,
    setup_environment,
    setup_policy,
    setup_venv,
)
from .layout import SERVICE_PROCESS_PATTERN, TasLayout
from .logging_utils import CLI_LOGGER, log_success
from .pid_file import PidFile
from .prerequisites import check_prerequisites
from .process_manager import ProcessManager
from .process_types import ProcessStatus, StartError, StopError, StopOutcome
from .prompt import confirm
from .redis_service import RedisService
from .smoke_tests import SmokeTester

logger = logging.getLogger(__name__)

PROG = "tas-quickstart"


@dataclass
class QuickstartContext:
    """Everything a command needs, built once per invocation by the CLI."""

    layout: TasLayout
    base_url: str
    manager: ProcessManager = field(default_factory=ProcessManager)
    redis: RedisService = field(default_factory=RedisService)
    assume_yes: bool = False
    sleep: Callable[[float], None] = time.sleep
    http_transport: httpx.BaseTransport | None = None

    def confirm(self, question: str) -> bool:
        return confirm(question, assume_yes=self.assume_yes)

    def service_environment(self) -> Dict[str, str]:
        """Env file values plus what ``source venv/bin/activate`` would set."""
        env = read_env_file(self.layout.env_file)
        venv_bin = self.layout.venv_dir / "bin"
        env["VIRTUAL_ENV"] = str(self.layout.venv_dir)
        env["PATH"] = os.pathsep.join([str(venv_bin), os.environ.get("PATH", "")])
        return env


def _report_error(exc: QuickstartError) -> None:
    CLI_LOGGER.error("%s", exc)
    if isinstance(exc, MissingDependency):
        CLI_LOGGER.info("Please install missing dependencies:")
    if exc.hints:
        print_details(*exc.hints, bullet="")


class ICommand(abc.ABC):
    """Abstract base class for a quickstart subcommand."""

    aliases: tuple[str, ...] = ()
    requires_checkout = True

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """The name of the command."""
        ...

    @property
    @abc.abstractmethod
    def description(self) -> str:
        """One line shown in the usage text."""
        ...

    @abc.abstractmethod
    def run(self, ctx: QuickstartContext) -> int:
        """Execute the command and return the process exit code."""
        ...


class InstallCommand(ICommand):
    name = "install"
    description = "Install and setup TAS environment"

    def run(self, ctx: QuickstartContext) -> int:
        layout = ctx.layout
        for required in (layout.app_entry, layout.requirements):
            if not required.is_file():
                CLI_LOGGER.error("%s not found in %s", required.name, layout.tas_dir)
                CLI_LOGGER.info("Please run this script from the TAS root directory")
                return 1

        steps = [
            ("Checking prerequisites...", lambda: check_prerequisites()),
            ("Checking Redis status...", lambda: ctx.redis.ensure_running()),
            ("Setting up Python virtual environment...", lambda: setup_venv(layout)),
            ("Installing SNP verification tools...", lambda: install_snp_tools(layout)),
            ("Installing TAS dependencies...", lambda: install_dependencies(layout)),
            ("Setting up environment variables...", lambda: setup_environment(layout)),
            ("Creating and signing demo policy...", lambda: setup_policy(layout)),
        ]
        for title, step in steps:
            print_step(title)
            try:
                step()
            except QuickstartError as exc:
                logger.debug("event=install_failed step=%r", title)
                _report_error(exc)
                return 1

        print_blank()
        print_header("Installation Complete!")
        log_success("TAS is ready to start")
        CLI_LOGGER.info("Next steps:")
        print_details(
            f"Start TAS:  {PROG} start",
            f"Run tests:  {PROG} test",
            f"Full demo:  {PROG} demo",
        )
        print_blank()
        return 0


class StartCommand(ICommand):
    name = "start"
    description = "Start TAS server in background"

    def run(self, ctx: QuickstartContext) -> int:
        layout = ctx.layout
        if not layout.venv_dir.is_dir():
            CLI_LOGGER.error(
                "Virtual environment not found. Please run: %s install", PROG
            )
            return 1
        if not layout.env_file.is_file():
            CLI_LOGGER.error("%s not found. Please run: %s install", layout.env_file.name, PROG)
            return 1

        env = ctx.service_environment()
        process = layout.service_process(env)

        current = ctx.manager.status(process)
        if current.status == ProcessStatus.RUNNING:
            CLI_LOGGER.warning("TAS is already running (PID: %s)", current.pid)
            CLI_LOGGER.info("To stop it, run: %s exit", PROG)
            return 1
        if current.status == ProcessStatus.STALE_FILE:
            CLI_LOGGER.warning("Stale PID file found. Removing...")

        CLI_LOGGER.info("Checking Redis...")
        try:
            ctx.redis.ensure_running(allow_systemctl=False)
        except QuickstartError as exc:
            _report_error(exc)
            return 1

        CLI_LOGGER.info("Starting TAS server in background...")
        result = ctx.manager.start(process)

        if result.error == StartError.ALREADY_RUNNING:
            CLI_LOGGER.warning("TAS is already running (PID: %s)", result.pid)
            CLI_LOGGER.info("To stop it, run: %s exit", PROG)
            return 1
        if result.error == StartError.SPAWN_FAILED:
            CLI_LOGGER.error("Failed to launch TAS: %s", result.detail)
            return 1
        if result.error == StartError.CRASHED_IMMEDIATELY:
            CLI_LOGGER.error(
                "TAS server failed to start. Check %s for details", layout.log_file
            )
            return 1

        log_success("TAS server started successfully (PID: %s)", result.pid)
        print_blank()
        CLI_LOGGER.info("Server details:")
        print_details(
            f"URL: {ctx.base_url}",
            f"PID: {result.pid}",
            f"Logs: {layout.log_file}",
            f"API Key: {env.get('TAS_API_KEY', '')}",
        )
        print_blank()
        CLI_LOGGER.info("Useful commands:")
        print_details(
            f"View logs:  tail -f {layout.log_file}",
            f"Run tests:  {PROG} test",
            f"Stop TAS:   {PROG} exit",
        )
        print_blank()
        return 0


class TestCommand(ICommand):
    name = "test"
    description = "Run tests against running TAS server"

    __test__ = False  # not a pytest class

    def run(self, ctx: QuickstartContext) -> int:
        layout = ctx.layout
        if not layout.env_file.is_file():
            CLI_LOGGER.error("%s not found. Please run: %s install", layout.env_file.name, PROG)
            return 1

        api_key = read_env_file(layout.env_file).get("TAS_API_KEY", "")
        tester = SmokeTester(
            ctx.base_url,
            api_key,
            sleep=ctx.sleep,
            transport=ctx.http_transport,
        )
        try:
            report = tester.run()
        except QuickstartError as exc:
            _report_error(exc)
            CLI_LOGGER.info("Check if TAS is running: cat %s", layout.pid_file)
            CLI_LOGGER.info("Check logs: tail -f %s", layout.log_file)
            return 1

        print_blank()
        print_header("Test Results")
        log_success("Tests passed: %d", report.passed)
        if report.failed:
            CLI_LOGGER.error("Tests failed: %d", report.failed)
            CLI_LOGGER.warning("Some tests failed. Check the output above for details.")
        else:
            CLI_LOGGER.info("Tests failed: %d", report.failed)
            log_success("All tests passed! ✓")
            CLI_LOGGER.info("TAS is ready to use!")
        print_blank()

        CLI_LOGGER.warning(
            "Note: The /kb/v0/get_secret endpoint requires a valid TEE attestation report"
        )
        CLI_LOGGER.info(
            "To test that endpoint, you'll need to generate an attestation report "
            "from a TEE-enabled platform"
        )
        return 0 if report.ok else 1


class StopCommand(ICommand):
    name = "exit"
    aliases = ("stop",)
    description = "Stop TAS server"

    def run(self, ctx: QuickstartContext) -> int:
        print_header("Shutting Down TAS")
        process = ctx.layout.service_process()

        current = ctx.manager.status(process)
        if current.status == ProcessStatus.NOT_RUNNING:
            return self._stop_without_pid_file(ctx)
        if current.status == ProcessStatus.STALE_FILE:
            CLI_LOGGER.warning("TAS server is not running (stale PID file found)")
            CLI_LOGGER.info("Cleaning up PID file...")
        else:
            CLI_LOGGER.info("Found TAS server running (PID: %s)", current.pid)
            CLI_LOGGER.info("Sending shutdown signal...")

        result = ctx.manager.stop(process)

        if result.error == StopError.NOT_PERMITTED:
            CLI_LOGGER.error(
                "Not permitted to signal PID %s (owned by another user?)", result.pid
            )
            CLI_LOGGER.info(
                "If TAS is no longer running, remove the stale PID file: rm %s",
                ctx.layout.pid_file,
            )
            return 1
        if not result.ok:
            CLI_LOGGER.error("Failed to stop TAS server (PID: %s)", result.pid)
            CLI_LOGGER.info("You may need to manually kill the process:")
            print_details(f"kill -9 {result.pid}", bullet="")
            return 1

        if result.outcome == StopOutcome.FORCE_KILLED:
            CLI_LOGGER.warning("Graceful shutdown timed out. Forced shutdown...")
            log_success("TAS server stopped (forced)")
            print_blank()
            print_header("TAS Shutdown Complete")
            CLI_LOGGER.warning("Server was forcefully terminated")
            return 0

        if result.signals_sent == 0:
            # Stale file or the process exited on its own in the meantime.
            return 0

        log_success("TAS server stopped gracefully")
        print_blank()
        if ctx.confirm("Do you want to stop Redis as well?"):
            self._stop_redis(ctx)
        print_blank()
        print_header("TAS Shutdown Complete")
        CLI_LOGGER.info("All services stopped successfully")
        return 0

    @staticmethod
    def _stop_redis(ctx: QuickstartContext) -> None:
        if not ctx.redis.ping():
            CLI_LOGGER.info("Redis is not running")
            return
        CLI_LOGGER.info("Stopping Redis...")
        if ctx.redis.shutdown():
            log_success("Redis stopped")
        else:
            CLI_LOGGER.warning("Redis may still be running (might be managed by system)")

    @staticmethod
    def _stop_without_pid_file(ctx: QuickstartContext) -> int:
        CLI_LOGGER.warning("No PID file found. TAS may not be running.")
        CLI_LOGGER.info("Checking for any running TAS processes...")

        matched = ctx.manager.find_matching(SERVICE_PROCESS_PATTERN)
        if not matched.pids:
            CLI_LOGGER.info("No TAS processes found running.")
            return 0

        CLI_LOGGER.warning(
            "Found TAS process(es) running: %s", " ".join(str(p) for p in matched.pids)
        )
        if ctx.confirm("Do you want to stop these processes?"):
            for pid in ctx.manager.signal_matching(matched):
                CLI_LOGGER.info("Stopped process %s", pid)
            ctx.sleep(2.0)
            log_success("Processes stopped")
        return 0


class UninstallCommand(ICommand):
    name = "uninstall"
    description = "Remove TAS installation (keeps core code)"

    def run(self, ctx: QuickstartContext) -> int:
        layout = ctx.layout
        print_header("Uninstalling TAS")

        if PidFile(layout.pid_file).exists():
            CLI_LOGGER.info("Stopping TAS server first...")
            if StopCommand().run(ctx) != 0:
                return 1

        print_blank()
        CLI_LOGGER.warning("This will remove:")
        targets = [
            ("Virtual environment", layout.venv_dir),
            ("SNP tools", layout.snp_tools_dir),
            ("Environment file", layout.env_file),
            ("Log file", layout.log_file),
            ("PID file", layout.pid_file),
        ]
        print_details(*(f"{label} ({path})" for label, path in targets))
        print_blank()

        if not ctx.confirm("Are you sure you want to continue?"):
            CLI_LOGGER.info("Uninstall cancelled")
            return 0

        for label, path in targets:
            CLI_LOGGER.info("Removing %s...", label.lower())
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            else:
                continue
            log_success("%s removed", label)

        print_blank()
        print_header("Uninstall Complete")
        CLI_LOGGER.info("TAS has been uninstalled. The core TAS code remains intact.")
        CLI_LOGGER.info("To reinstall, run: %s install", PROG)
        return 0


class DemoCommand(ICommand):
    name = "demo"
    description = "Run complete demo (install + start + test)"

    def run(self, ctx: QuickstartContext) -> int:
        layout = ctx.layout
        print_header("TAS Demo")

        print_header("Step 1: Installing TAS")
        if InstallCommand().run(ctx) != 0:
            CLI_LOGGER.error("Installation failed. Aborting demo.")
            return 1
        ctx.sleep(2.0)

        print_header("Step 2: Starting TAS Server")
        if StartCommand().run(ctx) != 0:
            CLI_LOGGER.error("Failed to start TAS. Aborting demo.")
            return 1
        ctx.sleep(2.0)

        print_header("Step 3: Running Tests")
        test_code = TestCommand().run(ctx)

        print_blank()
        print_header("Demo Complete!")
        if test_code == 0:
            log_success("All tests passed! TAS is running successfully.")
        else:
            CLI_LOGGER.warning("Some tests failed, but TAS is running.")

        api_key = ""
        if layout.env_file.is_file():
            api_key = read_env_file(layout.env_file).get("TAS_API_KEY", "")

        status = ctx.manager.status(layout.service_process())
        if status.status == ProcessStatus.RUNNING:
            CLI_LOGGER.info("TAS Server Status:")
            print_details(
                f"Running in background (PID: {status.pid})",
                f"URL: {ctx.base_url}",
                f"Logs: {layout.log_file}",
                f"API Key: {api_key}",
            )

        print_blank()
        CLI_LOGGER.info("Useful commands:")
        print_details(
            f"View logs:        tail -f {layout.log_file}",
            f"Stop server:      {PROG} exit",
            f"Run tests again:  {PROG} test",
            f"Uninstall:        {PROG} uninstall",
        )
        if api_key:
            print_blank()
            CLI_LOGGER.info("Example API calls:")
            print_details(
                f'Get version:      curl -H "X-API-KEY: {api_key}" {ctx.base_url}/version',
                f'Get nonce:        curl -H "X-API-KEY: {api_key}" {ctx.base_url}/kb/v0/get_nonce',
            )
        print_blank()
        return 0


class HelpCommand(ICommand):
    name = "help"
    description = "Show this help message"
    requires_checkout = False

    def run(self, ctx: QuickstartContext) -> int:
        show_usage(ctx.layout)
        return 0


ALL_COMMAND_CLASSES = [
    DemoCommand,
    InstallCommand,
    StartCommand,
    TestCommand,
    StopCommand,
    UninstallCommand,
    HelpCommand,
]


def get_commands() -> list[ICommand]:
    return [cls() for cls in ALL_COMMAND_CLASSES]


def show_usage(layout: TasLayout) -> None:
    print_rich("[cyan]TAS Quickstart[/cyan]")
    print_rich()
    print_rich("[blue]Usage:[/blue]")
    print_rich(f"  {PROG} \\[COMMAND]")
    print_rich()
    print_rich("[blue]Commands:[/blue]")
    for command in get_commands():
        print_rich(f"  [green]{command.name:<11}[/green] {command.description}")
        for alias in command.aliases:
            print_rich(f"  [green]{alias:<11}[/green] Alias for {command.name}")
    print_rich()
    print_rich("[blue]Examples:[/blue]")
    print_rich("  # Quick start (recommended for first time)")
    print_rich(f"  {PROG} demo")
    print_rich()
    print_rich("  # Manual workflow")
    for step in ("install", "start", "test", "exit"):
        print_rich(f"  {PROG} {step}")
    print_rich()
    print_rich("  # Clean up")
    print_rich(f"  {PROG} uninstall")
    print_rich()
    print_rich("[blue]More Information:[/blue]")
    print_rich(f"  • Logs: {escape(str(layout.log_file))}")
    print_rich(f"  • Environment: {escape(str(layout.env_file))}")
    print_rich(f"  • PID file: {escape(str(layout.pid_file))}")
    print_rich()
