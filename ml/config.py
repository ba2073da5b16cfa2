OTHER_KNOWN_LABELS = ("other_car",)
UNCLASSIFIED_LABELS = ("not_car",)

# Tolerance for treating a score vector as probabilities rather than logits
PROB_SUM_TOLERANCE = 0.1
