"""Allow ``python -m droot``."""

from droot.main import run

if __name__ == "__main__":
    run()
