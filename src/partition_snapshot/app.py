import faulthandler

from partition_snapshot.cli import main


def run() -> None:
    faulthandler.enable()
    raise SystemExit(main())


if __name__ == "__main__":
    run()
