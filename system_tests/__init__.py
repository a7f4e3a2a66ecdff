"""System tests: run the harness against a real build tool and sample project."""
