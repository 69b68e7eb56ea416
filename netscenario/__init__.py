"""netscenario: compiles declarative IDS traffic scenarios into event timelines."""

__version__ = "0.1.0"
