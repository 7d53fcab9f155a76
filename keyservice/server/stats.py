"""
Node statistics for the Server.* RPC methods.

Every call is a fresh query of the interpreter and the operating system;
nothing is cached or shared with the credential registry.
"""
import gc
import os
import platform
import resource
import socket
import sys
import threading

from keyservice.rpc.protocol import MemStatsReply, SysInfoReply


class StatsProvider:
    """Host memory and system information snapshots."""

    def mem_stats(self) -> MemStatsReply:
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is reported in bytes on macOS and in kilobytes elsewhere
        max_rss = usage.ru_maxrss if sys.platform == "darwin" else usage.ru_maxrss * 1024
        generations = gc.get_stats()
        return MemStatsReply(
            max_rss=max_rss,
            gc_counts=list(gc.get_count()),
            gc_collections=sum(g.get("collections", 0) for g in generations),
            gc_collected=sum(g.get("collected", 0) for g in generations),
            objects=len(gc.get_objects()),
        )

    def sys_info(self) -> SysInfoReply:
        return SysInfoReply(
            hostname=socket.gethostname(),
            sys_os=sys.platform,
            sys_arch=platform.machine(),
            sys_cpus=os.cpu_count() or 1,
            threads=threading.active_count(),
            python_version=platform.python_version(),
            pid=os.getpid(),
            mem_stats=self.mem_stats(),
        )
