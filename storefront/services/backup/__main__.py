from storefront.services.backup.cli import app

app()
