"""HTTP validator, directive and fingerprint helpers."""
