"""brokerdb core: store, ledger, migration runner and ambient plumbing."""
