from brokerdb.cli.app import app

app()
