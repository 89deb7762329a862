# revdeps/modules/config.py
import configparser
import os

DEFAULT_LOCATIONS = [
    "/etc/revdeps/revdeps.conf",
    os.path.expanduser("~/.config/revdeps/revdeps.conf"),
    os.path.join(os.getcwd(), "revdeps.conf"),
]

ENV_VAR = "REVDEPS_CONF"


def default_locations():
    env_path = os.environ.get(ENV_VAR)
    if env_path:
        return [env_path] + DEFAULT_LOCATIONS
    return list(DEFAULT_LOCATIONS)


class RevdepsConfig:
    def __init__(self, locations=None):
        self.locations = locations or default_locations()
        self.config = configparser.ConfigParser()
        self.loaded_from = None
        self.reload()

    def reload(self):
        """(Re)carrega a configuração do primeiro arquivo disponível."""
        self.config = configparser.ConfigParser()
        self.loaded_from = None
        for path in self.locations:
            if os.path.isfile(path):
                self.config.read(path, encoding="utf-8")
                self.loaded_from = path
                return path
        # sem arquivo: todos os getters caem nos fallbacks
        return None

    def get(self, section, option, fallback=None):
        try:
            return self.config.get(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getboolean(self, section, option, fallback=False):
        try:
            return self.config.getboolean(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getint(self, section, option, fallback=0):
        try:
            return self.config.getint(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback


# Instância global padrão para uso em outros módulos
config = RevdepsConfig()
