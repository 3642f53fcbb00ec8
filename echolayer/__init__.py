"""EchoLayer attention scoring, propagation graph and reward allocation core."""

__version__ = "0.1.0"
