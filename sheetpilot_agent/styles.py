# sheetpilot_agent/styles.py
from openpyxl.styles import Alignment, PatternFill, Font, Border, Side

# Borders
thin_border = Border(left=Side(style="thin"), right=Side(style="thin"),
                     top=Side(style="thin"), bottom=Side(style="thin"))

# Fills
header_fill     = PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid")  # Light Blue (header)
submitted_fill  = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")  # Light Green (submitted)
skipped_fill    = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")  # Light Yellow (already complete)
failed_fill     = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")  # Light Red (failed)

# Fonts
bold_font = Font(bold=True)
red_font  = Font(color="FF0000")

# Alignments
center_alignment = Alignment(horizontal="center", vertical="center")
wrap_alignment   = Alignment(wrap_text=True, vertical="top")
