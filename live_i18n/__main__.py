from live_i18n.cli import run

if __name__ == "__main__":
    run()
