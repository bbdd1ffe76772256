"""systemd service unit descriptor."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ServiceUnit:
    """A long-running service as systemd sees it.

    ``render()`` output is deterministic, so rewriting the unit on every
    run leaves the file byte-identical when nothing changed.
    """

    description: str
    exec_start: str
    documentation: str = ""
    after: tuple[str, ...] = ()
    wants: tuple[str, ...] = ()
    exec_start_pre: tuple[str, ...] = ()
    service_type: str = "simple"
    restart: str = "on-failure"
    restart_sec: int = 5
    read_write_paths: tuple[str, ...] = ()
    hardening: tuple[tuple[str, str], ...] = ()
    wanted_by: str = "multi-user.target"

    def render(self) -> str:
        unit = ["[Unit]", f"Description={self.description}"]
        if self.documentation:
            unit.append(f"Documentation={self.documentation}")
        if self.after:
            unit.append(f"After={' '.join(self.after)}")
        if self.wants:
            unit.append(f"Wants={' '.join(self.wants)}")

        service = ["[Service]", f"Type={self.service_type}"]
        service += [f"ExecStartPre={cmd}" for cmd in self.exec_start_pre]
        service += [
            f"ExecStart={self.exec_start}",
            f"Restart={self.restart}",
            f"RestartSec={self.restart_sec}",
            "StandardOutput=journal",
            "StandardError=journal",
        ]
        service += [f"{key}={value}" for key, value in self.hardening]
        if self.read_write_paths:
            service.append(f"ReadWritePaths={' '.join(self.read_write_paths)}")

        install = ["[Install]", f"WantedBy={self.wanted_by}"]

        return "\n".join(unit + [""] + service + [""] + install) + "\n"


def powerd_unit(daemon_binary: str, log_dir: str) -> ServiceUnit:
    """Unit for the NVIDIA dynamic boost daemon.

    The log directory is recreated before each start so the daemon can
    write there under ``ProtectSystem=strict``.
    """
    return ServiceUnit(
        description="NVIDIA Dynamic Boost Daemon",
        documentation="https://docs.nvidia.com/",
        after=("dbus.service",),
        wants=("dbus.service",),
        exec_start_pre=(f"/bin/mkdir -p {log_dir}", f"/bin/chmod 755 {log_dir}"),
        exec_start=daemon_binary,
        read_write_paths=(log_dir,),
        hardening=(
            ("ProtectSystem", "strict"),
            ("ProtectHome", "yes"),
            ("NoNewPrivileges", "true"),
            ("PrivateTmp", "true"),
        ),
    )
