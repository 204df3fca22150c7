"""Student Life Scoreboard: a personal habit tracker.

Users log timed activities per category (study, exercise, naps and so on),
optionally scored and illustrated with a photo. The pages show today's
points, weekly totals per category and a 0-100 balance score.
"""
