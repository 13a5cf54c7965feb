"""Media job engine — supervises one long-running tool invocation at a time.

Components:
  - terminator:  best-effort process-tree termination
  - launcher:    tool path resolution and spawning with piped output
  - progress:    CR/LF record splitting and progress parsing
  - completion:  exit status + cancellation -> one terminal outcome
  - supervisor:  JobManager, the active-job slot and start/cancel
  - server:      MCP tools (start_job, cancel_job, job_status)

Can run standalone:
    python -m media_jobs.process_manager
"""

from media_jobs.process_manager.launcher import MediaJobsError, SpawnFailure
from media_jobs.process_manager.server import create_server
from media_jobs.process_manager.supervisor import JobManager, JobStream

__all__ = ["JobManager", "JobStream", "MediaJobsError", "SpawnFailure", "create_server"]
