# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Default configuration.
"""

__docformat__ = "reStructuredText"

# Use these settings, if config file does not define them (or is totally missing)
DEFAULT_VERBOSE = 3
DEFAULT_LOGGER_DATE_FORMAT = "%H:%M:%S"
DEFAULT_LOGGER_FORMAT = "%(asctime)s.%(msecs)03d - %(levelname)-8s: %(message)s"

DEFAULT_CONFIG = {
    #: Verbose Output
    #: 0 - no output
    #: 1 - no output (excepting application exceptions)
    #: 2 - show warnings
    #: 3 - show repository setup
    #: 4 - show additional events
    "verbose": DEFAULT_VERBOSE,
    #: Log options
    "logging": {
        "enable": False,  # True: activate 'davrepo' logger (in library mode)
        "logger_date_format": DEFAULT_LOGGER_DATE_FORMAT,
        "logger_format": DEFAULT_LOGGER_FORMAT,
        "enable_loggers": [],
    },
    #: Defaults for all repositories
    "repository": {
        "auto_open": True,
        "live_property_uris": [],
    },
    "fs_backend": {
        "follow_symlinks": False,
    },
    #: <name>: {"root_uri": ..., "backend": ..., "readonly": False,
    #:          "mounts": {<rel_path>: <name>}}
    "repositories": {},
}
