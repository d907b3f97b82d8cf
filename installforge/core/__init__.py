"""installforge core: graph, fingerprints, planning and execution."""
