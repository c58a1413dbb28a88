"""wakewatch: Wake-on-LAN sender and reachability tracker."""

__version__ = "0.1.0"
