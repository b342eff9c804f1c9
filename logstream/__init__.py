"""logstream — per-task server-sent event log streams."""
