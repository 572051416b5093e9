"""
Quiz module for authoring quizzes and taking timed attempts.

Teachers create quizzes and grade essay answers; students start
attempts and submit answers that are graded automatically.
The blueprint lives in ``quizhub.quiz.routes``.
"""
