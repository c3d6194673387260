"""
JAX configuration, imported by the package before any engine code runs.

Model evaluation happens on the host in float64; the engine must trace the
log density with the same precision, so 64-bit mode is switched on here.
"""
import jax

jax.config.update("jax_enable_x64", True)
