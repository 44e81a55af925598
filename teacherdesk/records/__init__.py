"""Teacher Desk record store client.

Keep package import lightweight; import heavy submodules explicitly where needed.
"""

__version__ = "1.0.0"
__all__ = [
	"client",
	"auth",
	"models",
	"exceptions",
	"utils",
]
