"""
vpflow: bisection search for the cell volume that reaches a target pressure
in finite-temperature VASP molecular dynamics.
"""

__version__ = "0.1.0"
