"""brokerdb command-line interface (``brokerdb migrate`` / ``brokerdb status``)."""
