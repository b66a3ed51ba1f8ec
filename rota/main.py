import logging

from rota import config as settings
from rota.cli import RotaCLI


def main():
    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')
    RotaCLI(data_dir=settings.DATA_DIR).cmdloop()


if __name__ == "__main__":
    main()
