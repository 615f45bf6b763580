from app.truinventory import create_app

app = create_app()
