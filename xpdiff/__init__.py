"""Clients, diff calculation and command options for previewing the cluster changes that applying Crossplane resources would cause."""

__version__ = "0.1.0"