"""Dockship - deploy a Dockerized Git repository to a remote host over SSH."""

__version__ = "0.1.0"
