"""sketchreel: compile video scripts into animated, narrated, subtitled videos."""

__version__ = "0.1.0"
