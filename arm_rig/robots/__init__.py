"""
Kinematic chain model and inverse kinematics for the arm rig.

Provides the serial joint chain (arena of joint specs with index-based
parent links), forward kinematics producing per-link world poses, and the
damped Cyclic-Coordinate-Descent solver used while dragging the hand.
"""
