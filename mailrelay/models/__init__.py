from mailrelay.models.email_send_metric import EmailSendMetric

__all__ = ["EmailSendMetric"]
