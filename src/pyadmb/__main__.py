import sys


def run():
    from .cli import main

    main(sys.argv[1:])


if __name__ == '__main__':
    run()
