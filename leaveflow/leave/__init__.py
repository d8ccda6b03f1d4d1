"""Leave module — request workflow, balance ledger, annual renewal."""
