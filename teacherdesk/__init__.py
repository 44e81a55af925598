"""Teacher Desk roster aggregation and reconciliation engine.

Keep package import lightweight; import submodules explicitly where needed.
"""

__version__ = "1.0.0"
__all__ = [
	"activity",
	"config",
	"const",
	"coordinator",
	"history_guard",
	"overlay",
	"reconciler",
	"records",
	"resolver",
	"roster",
	"statistics",
	"validation",
]
