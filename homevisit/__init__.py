"""HomeVisit - home-visit appointment feasibility and doctor assignment."""

__version__ = "0.1.0"
