"""High-level DSP namespace for voice analysis and mix-graph synthesis.

Nothing in here renders audio; rendering is delegated to
``transmix.dsp_engine``.
"""
