from PySide6.QtWidgets import QWidget, QMessageBox


def error(parent: QWidget, title: str, text: str):
    QMessageBox.critical(parent, title, text)
