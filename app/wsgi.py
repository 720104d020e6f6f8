from app.adsmanager import create_app

app = create_app()
