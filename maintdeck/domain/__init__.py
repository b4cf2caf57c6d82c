"""Domain model: devices, their persistence and the operator event log."""
