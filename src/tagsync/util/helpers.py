import os


class FileSystem:

    @staticmethod
    def __get_base_dir() -> str:
        """Get the base directory of the project (the parent of ``src``)."""
        current_path = os.path.abspath(os.path.dirname(__file__))
        return os.path.abspath(os.path.join(current_path, "../../../"))

    @staticmethod
    def get_config_directory() -> str:
        """Get the settings directory, checking the environment variable first."""
        env_config_dir = os.environ.get("TAGSYNC_CONFIG_DIR")
        if env_config_dir:
            return env_config_dir
        base_dir = FileSystem.__get_base_dir()
        src_settings = os.path.join(base_dir, "src", "settings")
        if os.path.isdir(src_settings):
            return src_settings
        return os.path.join(os.getcwd(), "settings")

    @staticmethod
    def get_data_directory() -> str:
        """Get the directory keyword data is stored under."""
        return os.environ.get("TAGSYNC_DATA_DIR", "data")
