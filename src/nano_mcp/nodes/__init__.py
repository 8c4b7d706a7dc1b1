"""Built-in nodes. Each submodule exports its nodes through a ``NODES`` mapping."""
