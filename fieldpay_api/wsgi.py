from fieldpay_api import create_app

app = create_app()
