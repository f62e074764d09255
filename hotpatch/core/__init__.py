# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Small shared value types: function signatures and compiler diagnostics.
"""

__all__ = ["diagnostics", "signature"]
