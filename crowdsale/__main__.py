from crowdsale.cli import app

if __name__ == "__main__":
    app(prog_name="crowdsale")
