# module ridepay.app
from ridepay.app_setup.factory import create_app

# App globale
app = create_app()
