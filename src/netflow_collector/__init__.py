# netflow_collector -- multi-probe NetFlow v9 collector

__version__ = "2.1.0"
__author__ = "PB"
