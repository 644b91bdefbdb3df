import os

__app_name__ = "Wakeguard"
__package_name__ = "wakeguard"

with open(os.path.join(os.path.dirname(__file__), "VERSION"), "r") as version_file:
    __version__ = version_file.read().strip()

__description__ = "Watches the power state of cluster hosts and wakes them up with Wake-on-LAN."
__author__ = "Wakeguard Developers"
__author_email__ = ""
__author_url__ = ""
__license__ = "GPLv3"
