"""gcodegraph — load 3D-printer G-code as an editable graph of motion vertices."""

__version__ = "0.1.0"
