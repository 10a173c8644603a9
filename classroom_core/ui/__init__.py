from .sync_status import render_sync_status, report_auth_failure, sync_status_label

__all__ = ["render_sync_status", "report_auth_failure", "sync_status_label"]
