"""Built-in CLI sub-commands for offlinehttp.

* :mod:`~offlinehttp.commands.cache` -- inspect, flush and warm request caches.
* :mod:`~offlinehttp.commands.config` -- view and modify global settings.
"""
