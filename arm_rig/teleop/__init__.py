"""
Pointer-drag teleoperation for the arm rig.

Maps pointer (or terminal) input to IK drag gestures on the reconciler.
"""
