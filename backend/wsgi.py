from mercantile import create_app

app = create_app()
