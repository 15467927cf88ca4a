from mock_kms_plugin.cli import cli

cli()
