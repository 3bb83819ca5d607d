from pairing_service.cli import cli

cli()
