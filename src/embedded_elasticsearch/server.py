"""
Embedded Elasticsearch Server
=============================

Supervision of a locally installed Elasticsearch process.

Lifecycle:
    not_started → starting → ready → stopping → stopped
                     └──→ failed_to_start

``start()`` may be called again from stopped or failed_to_start.

The child's stderr is merged into stdout and a background thread reads the
merged stream until end of stream. Every line is logged and, until the
server reports readiness, classified for its pid, http port and transport
port. The thread calling ``start()`` waits on a condition in short slices
until the server is ready, the start timeout has elapsed, or the process
has died.
"""

import logging
import os
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .errors import (
    CleanupFailed,
    EmbeddedElasticError,
    LogContractViolation,
    SecurityBootstrapFailed,
    StartupFailed,
    StartupTimeout,
)
from .exit_hooks import CleanupHandle, CleanupRegistry, default_registry
from .java_home import JAVA_HOME_VARIABLE, JAVA_OPTS_VARIABLE, JavaHome
from .log_parser import HTTP_PORT, PID, STARTED, TRANSPORT_PORT, LogLineClassifier

logger = logging.getLogger(__name__)

NOT_STARTED = "not_started"
STARTING = "starting"
READY = "ready"
STOPPING = "stopping"
STOPPED = "stopped"
FAILED_TO_START = "failed_to_start"

PASSWORD_PREFIX = "PASSWORD"


def parse_password_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Parse one line of ``elasticsearch-setup-passwords auto -b`` output.

    Example:
        >>> parse_password_line("PASSWORD elastic = s3cr3t")
        ('elastic', 's3cr3t')

    Raises:
        SecurityBootstrapFailed: a PASSWORD line without ``=``
    """
    if not line.startswith(PASSWORD_PREFIX):
        return None
    user, separator, password = line[len(PASSWORD_PREFIX) + 1:].partition("=")
    if not separator:
        raise SecurityBootstrapFailed(f"Malformed password line: {line!r}")
    return user.strip(), password.strip()


class ElasticServer:
    """
    Owns one Elasticsearch child process.

    Example:
        server = ElasticServer("/opt/es/bin/elasticsearch", start_timeout=30)
        server.start()
        print(server.get_http_port())
        server.stop()
    """

    def __init__(
        self,
        executable: Union[str, Path],
        installation_directory: Optional[Union[str, Path]] = None,
        setup_passwords_executable: Optional[Union[str, Path]] = None,
        es_java_opts: str = "",
        start_timeout: float = 15.0,
        clean_installation_directory_on_stop: bool = True,
        java_home: Optional[JavaHome] = None,
        classifier: Optional[LogLineClassifier] = None,
        cleanups: Optional[CleanupRegistry] = None,
        poll_interval: float = 0.1
    ):
        """
        Args:
            executable: The ``bin/elasticsearch`` start script
            installation_directory: Instance directory, purged on stop if configured
            setup_passwords_executable: The ``bin/elasticsearch-setup-passwords`` script
            es_java_opts: Value exported as ``ES_JAVA_OPTS``
            start_timeout: Seconds to wait for readiness
            clean_installation_directory_on_stop: Delete the installation directory on stop
            java_home: Java runtime policy, defaults to the system one
            classifier: Console line classifier
            cleanups: Registry that stops the server at interpreter exit
            poll_interval: Seconds between readiness checks
        """
        self.executable = Path(executable)
        self.installation_directory = (
            Path(installation_directory) if installation_directory is not None else None
        )
        self.setup_passwords_executable = (
            Path(setup_passwords_executable) if setup_passwords_executable is not None else None
        )
        self.es_java_opts = es_java_opts
        self.start_timeout = start_timeout
        self.clean_installation_directory_on_stop = clean_installation_directory_on_stop
        self.java_home = java_home or JavaHome.use_system()
        self.classifier = classifier or LogLineClassifier()
        self.poll_interval = poll_interval
        self._cleanups = cleanups

        self._state = NOT_STARTED
        self._started = False
        self._started_lock = threading.Condition()
        self._failure: Optional[EmbeddedElasticError] = None

        self._process: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None
        self._exit_hook: Optional[CleanupHandle] = None

        self._pid = -1
        self._http_port = -1
        self._transport_tcp_port = -1

        self._passwords: Optional[Dict[str, str]] = None
        self._passwords_failure: Optional[SecurityBootstrapFailed] = None
        self._passwords_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """
        Launch Elasticsearch and block until it reports readiness.

        Raises:
            StartupTimeout: no readiness within ``start_timeout``
            StartupFailed: the process could not be launched or died early
            LogContractViolation: a marker line could not be parsed
        """
        if self._state not in (NOT_STARTED, STOPPED, FAILED_TO_START):
            raise RuntimeError(f"Cannot start server in state {self._state}")

        self._state = STARTING
        self._failure = None
        self._reset_ports()

        try:
            self._start_elastic_process()
            self._install_exit_hook()
            self._wait_for_elastic_to_start()
        except EmbeddedElasticError:
            self._state = FAILED_TO_START
            self._remove_exit_hook()
            self._stop_elastic_server()
            raise

        self._state = READY

    def stop(self):
        """
        Terminate the process, join the reader and purge the installation
        directory if configured. Stopping a server that is not running is
        a no-op.

        Raises:
            CleanupFailed: the installation directory could not be deleted
        """
        if self._state in (NOT_STARTED, STOPPED, STOPPING):
            return
        self._remove_exit_hook()
        self._state = STOPPING
        self._stop_elastic_server()
        self._finalize_close()

    @property
    def state(self) -> str:
        return self._state

    def is_started(self) -> bool:
        return self._started

    def get_pid(self) -> int:
        return self._pid

    def get_http_port(self) -> int:
        return self._http_port

    def get_transport_tcp_port(self) -> int:
        return self._transport_tcp_port

    # ------------------------------------------------------------------
    # Process handling
    # ------------------------------------------------------------------

    def _environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env[JAVA_OPTS_VARIABLE] = self.es_java_opts
        java_home = self.java_home.resolve()
        if java_home is not None:
            env[JAVA_HOME_VARIABLE] = java_home
        return env

    def _start_elastic_process(self):
        logger.info("Starting %s", self.executable)
        try:
            self._process = subprocess.Popen(
                [str(self.executable)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=self._environment(),
                encoding="utf-8",
                errors="replace"
            )
        except OSError as e:
            raise StartupFailed(f"Could not launch {self.executable}: {e}") from e

        self._reader = threading.Thread(
            target=self._read_output,
            args=(self._process.stdout,),
            name="embedded-elasticsearch-output",
            daemon=True
        )
        self._reader.start()

    def _install_exit_hook(self):
        registry = self._cleanups or default_registry()
        self._exit_hook = registry.register(self.stop)

    def _remove_exit_hook(self):
        if self._exit_hook is not None:
            self._exit_hook.cancel()
            self._exit_hook = None

    def _wait_for_elastic_to_start(self):
        logger.info("Waiting for Elasticsearch to start...")
        wait_until = time.monotonic() + self.start_timeout
        timed_out = False

        with self._started_lock:
            while (
                not self._started
                and self._failure is None
                and not timed_out
                and self._process.poll() is None
            ):
                self._started_lock.wait(self.poll_interval)
                timed_out = time.monotonic() > wait_until

        if not self._started and self._failure is None and not timed_out:
            # Process died; let the reader drain what it printed on the way out.
            self._reader.join(self.poll_interval * 10)

        if self._started:
            logger.info("Elasticsearch started...")
            return
        if self._failure is not None:
            raise self._failure
        if timed_out:
            raise StartupTimeout(
                f"Failed to start elasticsearch within time-out ({self.start_timeout}s)"
            )
        raise StartupFailed("Failed to start elasticsearch. Check previous logs for details")

    def _stop_elastic_server(self):
        logger.info("Stopping elasticsearch server...")
        process = self._process
        if process is not None:
            if self._pid > -1:
                self._stop_elastic_gracefully(process)
            elif process.poll() is None:
                process.terminate()
        self._pid = -1

        if process is not None:
            rc = process.wait()
            logger.info("Elasticsearch exited with RC %s", rc)
        self._process = None

        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join()
        self._reader = None

    def _stop_elastic_gracefully(self, process: subprocess.Popen):
        if os.name == "nt":
            subprocess.run(
                ["taskkill", "/f", "/pid", str(self._pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False
            )
        else:
            process.terminate()

    def _finalize_close(self):
        with self._started_lock:
            self._started = False
        self._reset_ports()
        self._state = STOPPED

        if self.clean_installation_directory_on_stop and self.installation_directory is not None:
            logger.info("Removing installation directory %s", self.installation_directory)
            try:
                shutil.rmtree(self.installation_directory)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise CleanupFailed(
                    "Could not delete data directory of embedded elasticsearch server. "
                    "Possibly an instance is running."
                ) from e
        logger.info("Finishing...")

    def _reset_ports(self):
        self._pid = -1
        self._http_port = -1
        self._transport_tcp_port = -1

    # ------------------------------------------------------------------
    # Console parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _read_lines(stream):
        while True:
            try:
                line = stream.readline()
            except (OSError, ValueError):
                # Read errors end the stream.
                return
            if not line:
                return
            yield line.rstrip("\r\n")

    def _read_output(self, stream):
        with stream:
            for line in self._read_lines(stream):
                logger.info(line)
                self._parse_elastic_log_line(line)

    def _parse_elastic_log_line(self, line: str):
        if self._started or self._failure is not None:
            return
        try:
            event = self.classifier.classify(line)
        except LogContractViolation as e:
            with self._started_lock:
                self._failure = e
                self._started_lock.notify_all()
            return

        if event is None:
            return
        if event.kind == STARTED:
            self._signal_elastic_started()
        elif event.kind == PID:
            self._pid = event.value
            logger.info("Detected Elasticsearch PID: %s", self._pid)
        elif event.kind == HTTP_PORT and self._http_port < 0:
            self._http_port = event.value
            logger.info("Detected Elasticsearch http port: %s", self._http_port)
        elif event.kind == TRANSPORT_PORT and self._transport_tcp_port < 0:
            self._transport_tcp_port = event.value
            logger.info("Detected Elasticsearch transport tcp port: %s", self._transport_tcp_port)

    def _signal_elastic_started(self):
        with self._started_lock:
            self._started = True
            self._started_lock.notify_all()

    # ------------------------------------------------------------------
    # Security
    # ------------------------------------------------------------------

    def get_password(self, user: str) -> Optional[str]:
        """
        Password of a built-in user, generated on first call by running the
        password bootstrap once.

        Raises:
            SecurityBootstrapFailed: the bootstrap failed, also on every later call
        """
        self._init_default_security()
        return self._passwords.get(user)

    def get_passwords(self) -> Dict[str, str]:
        """All bootstrapped credentials, user → password."""
        self._init_default_security()
        return dict(self._passwords)

    def _init_default_security(self):
        with self._passwords_lock:
            if self._passwords is not None:
                return
            if self._passwords_failure is not None:
                raise self._passwords_failure
            try:
                self._passwords = self._setup_passwords()
            except SecurityBootstrapFailed as e:
                self._passwords_failure = e
                raise

    def _setup_passwords(self) -> Dict[str, str]:
        if self.setup_passwords_executable is None:
            raise SecurityBootstrapFailed("No password setup executable configured")

        command = [str(self.setup_passwords_executable), "auto", "-b"]
        logger.info("Setting up passwords with %s", command[0])
        try:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=self._environment(),
                encoding="utf-8",
                errors="replace",
                check=False
            )
        except OSError as e:
            raise SecurityBootstrapFailed(f"Could not run {command[0]}: {e}") from e

        if result.returncode != 0:
            raise SecurityBootstrapFailed(
                f"{command[0]} exited with RC {result.returncode}: {result.stdout.strip()}"
            )

        passwords = {}
        for line in result.stdout.splitlines():
            parsed = parse_password_line(line)
            if parsed is not None:
                user, password = parsed
                passwords[user] = password
        return passwords
