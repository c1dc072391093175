from cafepos import create_app

app = create_app()
