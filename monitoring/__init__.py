"""File-backed monitoring outputs: alert log, decision events, metrics snapshot."""
